"""
Unit tests for the data model codecs and attachment helpers.
"""

import base64
import tempfile
import unittest
from pathlib import Path

from studyplanner.model import (
    MAX_FILE_ATTACHMENT_BYTES,
    Attachment,
    CourseEvent,
    User,
    events_from_dicts,
    events_to_dicts,
)


class TestCourseEvent(unittest.TestCase):
    def test_optional_keys_stay_omitted(self) -> None:
        raw = {"id": "e1", "title": "Calc I", "date": "2024-03-05", "startTime": "09:00", "endTime": "10:30", "color": "red"}
        ev = CourseEvent.from_dict(raw)
        self.assertIsNone(ev.location)
        self.assertIsNone(ev.attachments)
        self.assertEqual(ev.to_dict(), raw)

    def test_full_record_roundtrip(self) -> None:
        raw = {
            "id": "e2",
            "title": "Physics Lab",
            "location": "B-201",
            "date": "2024-03-06",
            "startTime": "13:00",
            "endTime": "16:00",
            "color": "blue",
            "attachments": [
                {"id": "a1", "name": "Sheet", "type": "link", "path": "https://example.org/sheet"},
                {"id": "a2", "name": "notes.txt", "type": "file", "path": "data:text/plain;base64,aGk=", "size": 2},
            ],
        }
        self.assertEqual(CourseEvent.from_dict(raw).to_dict(), raw)

    def test_inverted_times_are_kept(self) -> None:
        raw = {"id": "e3", "title": "Odd", "date": "2024-03-05", "startTime": "12:00", "endTime": "08:00", "color": "gray"}
        ev = CourseEvent.from_dict(raw)
        self.assertEqual((ev.start_time, ev.end_time), ("12:00", "08:00"))

    def test_malformed_collection_raises(self) -> None:
        with self.assertRaises(ValueError):
            events_from_dicts([{"id": "x", "title": "no date"}])
        with self.assertRaises(ValueError):
            events_from_dicts({"not": "a list"})
        with self.assertRaises(ValueError):
            events_from_dicts([{"id": "x", "title": "t", "date": "d", "startTime": "a", "endTime": "b",
                                "attachments": [{"id": "a", "type": "video", "path": "p"}]}])

    def test_non_object_attachment_raises_value_error(self) -> None:
        base = {"id": "x", "title": "t", "date": "d", "startTime": "a", "endTime": "b"}
        with self.assertRaises(ValueError):
            events_from_dicts([{**base, "attachments": ["x"]}])
        with self.assertRaises(ValueError):
            events_from_dicts([{**base, "attachments": [{"id": "a", "type": "file", "path": "p", "size": [1]}]}])

    def test_collection_roundtrip(self) -> None:
        events = [
            CourseEvent(id="1", title="A", date="2024-01-01", start_time="08:00", end_time="09:00"),
            CourseEvent(id="2", title="B", date="2024-01-02", start_time="10:00", end_time="11:00", color="green"),
        ]
        self.assertEqual(events_from_dicts(events_to_dicts(events)), events)


class TestAttachment(unittest.TestCase):
    def test_link_gets_https_prefix(self) -> None:
        a = Attachment.link("drive.google.com/file/abc")
        self.assertEqual(a.path, "https://drive.google.com/file/abc")
        self.assertEqual(a.name, a.path)
        self.assertEqual(a.type, "link")
        self.assertIsNone(a.size)

    def test_link_keeps_existing_scheme_and_name(self) -> None:
        a = Attachment.link("HTTP://example.org", "Syllabus")
        self.assertEqual(a.path, "HTTP://example.org")
        self.assertEqual(a.name, "Syllabus")

    def test_empty_link_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Attachment.link("   ")

    def test_file_is_embedded_as_data_url(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "notes.txt"
            p.write_bytes(b"hello")
            a = Attachment.from_file(p)
        self.assertEqual(a.type, "file")
        self.assertEqual(a.name, "notes.txt")
        self.assertEqual(a.size, 5)
        self.assertTrue(a.path.startswith("data:text/plain;base64,"))
        self.assertEqual(base64.b64decode(a.path.split(",", 1)[1]), b"hello")

    def test_large_file_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "big.bin"
            p.write_bytes(b"\0" * (MAX_FILE_ATTACHMENT_BYTES + 1))
            with self.assertRaises(ValueError):
                Attachment.from_file(p)


class TestUser(unittest.TestCase):
    def test_roundtrip_and_validation(self) -> None:
        u = User(username="ann", last_login="2024-03-05T08:00:00.000+00:00")
        self.assertEqual(User.from_dict(u.to_dict()), u)
        with self.assertRaises(ValueError):
            User.from_dict({"lastLogin": "x"})


if __name__ == "__main__":
    unittest.main()
