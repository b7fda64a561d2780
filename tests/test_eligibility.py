import unittest
from dataclasses import replace

from hackeval.eligibility import (
    DEFAULT_RULES,
    EligibilityRules,
    Gender,
    MemberDescriptor,
    MemberRole,
    SchoolStudentPolicy,
    check_roster,
    leader_of,
)
from hackeval.errors import ErrorCode, ValidationError


def valid_roster() -> list[MemberDescriptor]:
    return [
        MemberDescriptor(
            "Asha Rao", "asha@example.com", Gender.FEMALE, MemberRole.LEADER,
            is_ieee_member=True, ieee_number="IEEE-1001",
        ),
        MemberDescriptor("Ben Ito", "ben@example.com", Gender.MALE, MemberRole.MEMBER),
        MemberDescriptor("Chen Li", "chen@example.com", Gender.MALE, MemberRole.MEMBER),
        MemberDescriptor("Dev Shah", "dev@example.com", Gender.MALE, MemberRole.MEMBER),
        MemberDescriptor("Eli Park", "eli@example.com", Gender.OTHER, MemberRole.MEMBER),
        MemberDescriptor(
            "Finn Roy", "finn@example.com", Gender.MALE, MemberRole.SCHOOL_STUDENT,
            school_standard="8th", artifact_url="https://blob.test/school-ids/1.pdf",
        ),
    ]


class CheckRosterTestCase(unittest.TestCase):
    def test_valid_roster_is_accepted(self):
        result = check_roster(valid_roster())
        self.assertTrue(result.accepted)
        result.raise_for_violation()

    def test_wrong_size_rejected(self):
        roster = valid_roster()
        for size in (0, 5, 7):
            members = (roster * 2)[:size]
            result = check_roster(members)
            self.assertEqual(result.code, ErrorCode.WRONG_ROSTER_SIZE, size)

    def test_no_leader_and_two_leaders(self):
        roster = valid_roster()
        roster[0] = replace(roster[0], role=MemberRole.MEMBER)
        self.assertEqual(check_roster(roster).code, ErrorCode.LEADER_COUNT_INVALID)

        roster = valid_roster()
        roster[1] = replace(roster[1], role=MemberRole.LEADER)
        self.assertEqual(check_roster(roster).code, ErrorCode.LEADER_COUNT_INVALID)

    def test_leader_without_ieee_number(self):
        roster = valid_roster()
        roster[0] = replace(roster[0], ieee_number="  ")
        result = check_roster(roster)
        self.assertEqual(result.code, ErrorCode.LEADER_NOT_IEEE_MEMBER)
        self.assertEqual(result.slot, 0)

        roster[0] = replace(roster[0], is_ieee_member=False, ieee_number="IEEE-1")
        self.assertEqual(check_roster(roster).code, ErrorCode.LEADER_NOT_IEEE_MEMBER)

    def test_school_student_count(self):
        roster = valid_roster()
        roster[5] = replace(roster[5], role=MemberRole.MEMBER)
        self.assertEqual(
            check_roster(roster).code, ErrorCode.SCHOOL_STUDENT_COUNT_INVALID
        )

        roster = valid_roster()
        roster[4] = replace(
            roster[5], full_name="Gia", email="gia@example.com"
        )
        self.assertEqual(
            check_roster(roster).code, ErrorCode.SCHOOL_STUDENT_COUNT_INVALID
        )
        relaxed = EligibilityRules(school_student_policy=SchoolStudentPolicy.AT_LEAST_ONE)
        self.assertTrue(check_roster(roster, relaxed).accepted)

    def test_school_student_fields(self):
        roster = valid_roster()
        roster[5] = replace(roster[5], artifact_url=None)
        result = check_roster(roster)
        self.assertEqual(result.code, ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS)
        self.assertEqual(result.slot, 5)

        roster = valid_roster()
        roster[5] = replace(roster[5], school_standard="")
        self.assertEqual(
            check_roster(roster).code, ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS
        )

    def test_school_standard_outside_allowed_range(self):
        roster = valid_roster()
        roster[5] = replace(roster[5], school_standard="12th")
        self.assertEqual(
            check_roster(roster).code, ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS
        )
        roster[5] = replace(roster[5], school_standard="6TH")
        self.assertTrue(check_roster(roster).accepted)
        open_rules = EligibilityRules(allowed_school_standards=())
        roster[5] = replace(roster[5], school_standard="12th")
        self.assertTrue(check_roster(roster, open_rules).accepted)

    def test_no_female_member(self):
        roster = valid_roster()
        roster[0] = replace(roster[0], gender=Gender.MALE)
        self.assertEqual(check_roster(roster).code, ErrorCode.NO_FEMALE_MEMBER)

    def test_first_violation_wins(self):
        # Missing IEEE number, no school student and no female at once
        roster = valid_roster()
        roster[0] = replace(roster[0], gender=Gender.MALE, ieee_number=None)
        roster[5] = replace(roster[5], role=MemberRole.MEMBER)
        self.assertEqual(check_roster(roster).code, ErrorCode.LEADER_NOT_IEEE_MEMBER)

        roster[0] = replace(roster[0], ieee_number="IEEE-9")
        self.assertEqual(
            check_roster(roster).code, ErrorCode.SCHOOL_STUDENT_COUNT_INVALID
        )

        roster = valid_roster()
        roster[0] = replace(roster[0], gender=Gender.MALE)
        roster[5] = replace(roster[5], school_standard=None)
        self.assertEqual(
            check_roster(roster).code, ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS
        )

    def test_raise_for_violation(self):
        roster = valid_roster()
        roster[0] = replace(roster[0], ieee_number=None)
        with self.assertRaises(ValidationError) as ctx:
            check_roster(roster).raise_for_violation()
        self.assertEqual(ctx.exception.code, ErrorCode.LEADER_NOT_IEEE_MEMBER)
        self.assertEqual(ctx.exception.details, {"slot": 0})
        self.assertEqual(ctx.exception.to_json()["error"], "LEADER_NOT_IEEE_MEMBER")

    def test_custom_roster_size(self):
        roster = valid_roster()[:1] + valid_roster()[5:]
        roster[0] = replace(roster[0], gender=Gender.FEMALE)
        rules = EligibilityRules(roster_size=2)
        self.assertTrue(check_roster(roster, rules).accepted)
        self.assertEqual(check_roster(roster, DEFAULT_RULES).code, ErrorCode.WRONG_ROSTER_SIZE)


class ParsingTestCase(unittest.TestCase):
    def test_role_aliases(self):
        self.assertIs(MemberRole.parse("TeamLeader"), MemberRole.LEADER)
        self.assertIs(MemberRole.parse("TeamMember"), MemberRole.MEMBER)
        self.assertIs(MemberRole.parse("SchoolStudent"), MemberRole.SCHOOL_STUDENT)
        with self.assertRaises(ValueError):
            MemberRole.parse("Captain")

    def test_gender_is_case_insensitive(self):
        self.assertIs(Gender.parse("female"), Gender.FEMALE)
        with self.assertRaises(ValueError):
            Gender.parse("unknown")

    def test_leader_of(self):
        self.assertEqual(leader_of(valid_roster()).email, "asha@example.com")
        with self.assertRaises(ValueError):
            leader_of(valid_roster()[1:])


if __name__ == "__main__":
    unittest.main()
