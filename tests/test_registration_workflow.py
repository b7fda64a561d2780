import threading
import unittest
from dataclasses import replace
from unittest.mock import patch

import requests
from sqlalchemy import func, select

from hackeval import workflows
from hackeval.db.engine import get_sessionmaker, make_engine
from hackeval.eligibility import Gender, MemberDescriptor, MemberRole
from hackeval.errors import (
    ConflictError,
    ErrorCode,
    UpstreamError,
    ValidationError,
)
from hackeval.models import Base, Team, TeamMember, User, UserRole
from hackeval.schemas import (
    MentorDescriptor,
    RegistrationRequest,
    RepresentativeDescriptor,
)
from hackeval.storage.api import BlobClient
from hackeval.storage.artifacts import ArtifactPayload
from hackeval.workflows import register_team

PDF = b"%PDF-1.4 school id"


class DummyBlobClient(BlobClient):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.keys: list[str] = []
        self._lock = threading.Lock()

    def upload(self, payload, key, content_type="application/octet-stream"):
        with self._lock:
            self.keys.append(key)
        if self.fail:
            raise requests.ConnectionError("blob service unreachable")
        return f"https://blob.test/{key}"


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)
        return True


class ExplodingNotifier:
    def publish(self, event):
        raise RuntimeError("broker down")


def roster(leader_email: str = "asha@example.com") -> tuple[MemberDescriptor, ...]:
    return (
        MemberDescriptor(
            "Asha Rao", leader_email, Gender.MALE, MemberRole.LEADER,
            is_ieee_member=True, ieee_number="IEEE-1001", contact_no="555-0100",
        ),
        MemberDescriptor("Bea Ito", "bea@example.com", Gender.FEMALE, MemberRole.MEMBER),
        MemberDescriptor("Chen Li", "chen@example.com", Gender.MALE, MemberRole.MEMBER),
        MemberDescriptor("Dev Shah", "dev@example.com", Gender.MALE, MemberRole.MEMBER),
        MemberDescriptor("Eli Park", "eli@example.com", Gender.OTHER, MemberRole.MEMBER),
        MemberDescriptor(
            "Finn Roy", "finn@example.com", Gender.MALE, MemberRole.SCHOOL_STUDENT,
            school_standard="8th",
        ),
    )


def falcons(
    team_name: str = "Falcons",
    leader_email: str = "asha@example.com",
    with_file: bool = True,
) -> RegistrationRequest:
    return RegistrationRequest(
        team_name=team_name,
        theme="Healthcare",
        members=roster(leader_email),
        faculty_mentor=MentorDescriptor("Dr. Mehta", "mehta@uni.edu", "FAC-7"),
        community_representative=RepresentativeDescriptor(
            "Ravi", "ravi@ieee.org", "IEEE Student Branch"
        ),
        artifacts={5: ArtifactPayload("finn-id.pdf", PDF)} if with_file else {},
    )


class RegisterTeamTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)
        self.blob = DummyBlobClient()
        self.notifier = RecordingNotifier()

    def tearDown(self):
        self.engine.dispose()

    def count(self, model) -> int:
        with self.Session() as session:
            return session.scalar(select(func.count()).select_from(model))

    def test_falcons_registration_creates_aggregate_and_leader_account(self):
        result = register_team(
            self.Session, falcons(), blob_client=self.blob, notifier=self.notifier
        )
        self.assertEqual(result.team_name, "Falcons")

        with self.Session() as session:
            team = session.get(Team, result.team_id)
            self.assertEqual(team.theme, "Healthcare")
            self.assertEqual([m.slot_index for m in team.members], list(range(6)))
            self.assertEqual(team.leader.email, "asha@example.com")
            self.assertEqual(team.faculty_mentor.faculty_id, "FAC-7")
            self.assertEqual(team.community_representative.name, "Ravi")
            student = team.members[5]
            self.assertTrue(
                student.school_id_url.startswith("https://blob.test/school-ids/")
            )

            leader = User.get_by_email(session, "asha@example.com")
            self.assertEqual(leader.role, UserRole.PARTICIPANT.value)
            self.assertEqual(leader.team_id, team.id)
            self.assertEqual(leader.name, "Asha Rao")
            self.assertTrue(leader.check_password(workflows.DEFAULT_LEADER_PASSWORD))

        self.assertEqual(len(self.blob.keys), 1)
        self.assertEqual([e.type for e in self.notifier.events], ["team.registered"])
        self.assertEqual(self.notifier.events[0].payload["team_id"], result.team_id)

    def test_custom_leader_password(self):
        register_team(
            self.Session, falcons(), blob_client=self.blob, leader_password="Xy!42abc"
        )
        with self.Session() as session:
            self.assertTrue(
                User.get_by_email(session, "asha@example.com").check_password("Xy!42abc")
            )

    def test_ineligible_roster_is_rejected_before_upload(self):
        request = falcons(with_file=False)
        with self.assertRaises(ValidationError) as ctx:
            register_team(self.Session, request, blob_client=self.blob)
        self.assertEqual(ctx.exception.code, ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS)
        self.assertEqual(ctx.exception.details, {"slot": 5})
        self.assertEqual(self.blob.keys, [])
        self.assertEqual(self.count(Team), 0)

    def test_no_female_member_rejected(self):
        request = falcons()
        members = list(request.members)
        members[1] = replace(members[1], gender=Gender.MALE)
        with self.assertRaises(ValidationError) as ctx:
            register_team(
                self.Session, replace(request, members=tuple(members)), blob_client=self.blob
            )
        self.assertEqual(ctx.exception.code, ErrorCode.NO_FEMALE_MEMBER)
        self.assertEqual(self.count(Team), 0)

    def test_client_supplied_document_url_does_not_count(self):
        request = falcons(with_file=False)
        members = list(request.members)
        members[5] = replace(
            members[5], artifact_url="https://elsewhere.example/never-uploaded.pdf"
        )
        with self.assertRaises(ValidationError) as ctx:
            register_team(
                self.Session, replace(request, members=tuple(members)), blob_client=self.blob
            )
        self.assertEqual(ctx.exception.code, ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS)
        self.assertEqual(self.blob.keys, [])
        self.assertEqual(self.count(Team), 0)

    def test_uploaded_file_replaces_client_supplied_url(self):
        request = falcons()
        members = list(request.members)
        members[5] = replace(members[5], artifact_url="https://elsewhere.example/x.pdf")
        result = register_team(
            self.Session, replace(request, members=tuple(members)), blob_client=self.blob
        )
        with self.Session() as session:
            url = session.get(Team, result.team_id).members[5].school_id_url
        self.assertEqual(url, f"https://blob.test/{self.blob.keys[0]}")

    def test_file_on_non_student_slot_is_rejected_before_upload(self):
        request = replace(
            falcons(),
            artifacts={
                5: ArtifactPayload("finn-id.pdf", PDF),
                2: ArtifactPayload("chen-id.pdf", PDF),
            },
        )
        with self.assertRaises(ValidationError) as ctx:
            register_team(self.Session, request, blob_client=self.blob)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_ARTIFACT)
        self.assertEqual(ctx.exception.details["slot"], 2)
        self.assertEqual(self.blob.keys, [])
        self.assertEqual(self.count(Team), 0)

    def test_roster_size_is_reported_before_artifact_slots(self):
        request = falcons()
        extra = MemberDescriptor(
            "Gus Ito", "gus@example.com", Gender.MALE, MemberRole.MEMBER
        )
        request = replace(
            request,
            members=request.members + (extra,),
            artifacts={6: ArtifactPayload("gus-id.pdf", PDF)},
        )
        with self.assertRaises(ValidationError) as ctx:
            register_team(self.Session, request, blob_client=self.blob)
        self.assertEqual(ctx.exception.code, ErrorCode.WRONG_ROSTER_SIZE)
        self.assertEqual(self.blob.keys, [])

    def test_upload_failure_aborts_before_persistence(self):
        with self.assertRaises(UpstreamError) as ctx:
            register_team(
                self.Session,
                falcons(),
                blob_client=DummyBlobClient(fail=True),
                notifier=self.notifier,
            )
        self.assertEqual(ctx.exception.code, ErrorCode.ARTIFACT_UPLOAD_FAILED)
        self.assertEqual(self.count(Team), 0)
        self.assertEqual(self.count(User), 0)
        self.assertEqual(self.notifier.events, [])

    def test_failure_before_leader_account_rolls_everything_back(self):
        with patch(
            "hackeval.workflows._provision_leader_account",
            side_effect=RuntimeError("boom"),
        ):
            with self.assertLogs("hackeval.workflows", level="WARNING") as logs:
                with self.assertRaises(RuntimeError):
                    register_team(
                        self.Session, falcons(), blob_client=self.blob, notifier=self.notifier
                    )
        self.assertIn("orphaned artifacts", logs.output[0])
        self.assertEqual(self.count(Team), 0)
        self.assertEqual(self.count(TeamMember), 0)
        self.assertEqual(self.count(User), 0)
        self.assertEqual(self.notifier.events, [])

    def test_duplicate_team_name(self):
        register_team(self.Session, falcons(), blob_client=self.blob)
        with self.assertRaises(ConflictError) as ctx:
            register_team(
                self.Session, falcons(leader_email="other@example.com"), blob_client=self.blob
            )
        self.assertEqual(ctx.exception.code, ErrorCode.TEAM_NAME_TAKEN)
        self.assertEqual(self.count(Team), 1)

    def test_team_name_race_is_reported_as_conflict(self):
        register_team(self.Session, falcons(), blob_client=self.blob)
        # Simulate a concurrent registration that committed after our pre-check.
        with patch.object(Team, "get_by_name", return_value=None):
            with self.assertRaises(ConflictError) as ctx:
                register_team(
                    self.Session,
                    falcons(leader_email="other@example.com"),
                    blob_client=self.blob,
                )
        self.assertEqual(ctx.exception.code, ErrorCode.TEAM_NAME_TAKEN)
        self.assertEqual(self.count(Team), 1)
        self.assertEqual(self.count(User), 1)

    def test_leader_email_already_registered(self):
        register_team(self.Session, falcons(), blob_client=self.blob)
        with self.assertRaises(ConflictError) as ctx:
            register_team(
                self.Session,
                falcons(team_name="Hawks", leader_email="ASHA@example.com"),
                blob_client=self.blob,
            )
        self.assertEqual(ctx.exception.code, ErrorCode.LEADER_EMAIL_TAKEN)
        self.assertEqual(self.count(Team), 1)

    def test_notification_failure_does_not_fail_registration(self):
        with self.assertLogs("hackeval.workflows", level="WARNING"):
            result = register_team(
                self.Session, falcons(), blob_client=self.blob, notifier=ExplodingNotifier()
            )
        self.assertIsNotNone(result.team_id)
        self.assertEqual(self.count(Team), 1)


class RegistrationRequestTestCase(unittest.TestCase):
    def payload(self):
        return {
            "teamName": " Falcons ",
            "theme": "Healthcare",
            "members": [
                {
                    "fullName": "Asha Rao", "email": "asha@example.com", "gender": "male",
                    "role": "TeamLeader", "isIeeeMember": "Yes", "ieeeNumber": "IEEE-1",
                },
                {"fullName": "Bea", "email": "bea@example.com", "gender": "Female", "role": "TeamMember"},
                {"fullName": "Chen", "email": "chen@example.com", "gender": "Male", "role": "Member"},
                {"fullName": "Dev", "email": "dev@example.com", "gender": "Male", "role": "Member"},
                {"fullName": "Eli", "email": "eli@example.com", "gender": "Other", "role": "Member", "isIeeeMember": False},
                {
                    "fullName": "Finn", "email": "finn@example.com", "gender": "Male",
                    "role": "SchoolStudent", "schoolStandard": "9th",
                },
            ],
            "facultyMentor": {"name": "Dr. Mehta", "email": "mehta@uni.edu", "facultyId": "FAC-7"},
            "communityRepresentative": {"name": "Ravi", "email": "ravi@ieee.org", "affiliation": "IEEE"},
        }

    def test_parses_form_payload(self):
        files = {"schoolIdPdf_5": ArtifactPayload("finn.pdf", PDF)}
        request = RegistrationRequest.from_dict(self.payload(), files)

        self.assertEqual(request.team_name, "Falcons")
        self.assertIs(request.members[0].role, MemberRole.LEADER)
        self.assertTrue(request.members[0].is_ieee_member)
        self.assertFalse(request.members[4].is_ieee_member)
        self.assertIs(request.members[1].role, MemberRole.MEMBER)
        self.assertIs(request.members[0].gender, Gender.MALE)
        self.assertEqual(request.members[5].school_standard, "9th")
        self.assertEqual(list(request.artifacts), [5])
        self.assertEqual(request.faculty_mentor.faculty_id, "FAC-7")

    def test_reports_every_invalid_field(self):
        data = self.payload()
        data["teamName"] = ""
        data["members"][2]["email"] = "not-an-email"
        data["members"][3]["role"] = "Captain"
        del data["facultyMentor"]["facultyId"]

        with self.assertRaises(ValidationError) as ctx:
            RegistrationRequest.from_dict(data, {"resume": ArtifactPayload("x.pdf", PDF)})
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_REGISTRATION)
        fields = {problem["field"] for problem in ctx.exception.details}
        self.assertEqual(
            fields,
            {
                "teamName",
                "members[2].email",
                "members[3].role",
                "facultyMentor.facultyId",
                "resume",
            },
        )

    def test_document_url_in_body_is_not_read(self):
        data = self.payload()
        data["members"][5]["schoolIdPdf"] = "https://elsewhere.example/never-uploaded.pdf"
        request = RegistrationRequest.from_dict(data)
        self.assertIsNone(request.members[5].artifact_url)
        self.assertEqual(dict(request.artifacts), {})

    def test_members_must_be_a_list(self):
        data = self.payload()
        data["members"] = "six people"
        with self.assertRaises(ValidationError):
            RegistrationRequest.from_dict(data)


if __name__ == "__main__":
    unittest.main()
