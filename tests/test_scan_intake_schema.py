"""
Scan Intake Validation Tests

The patient self-report body accepted when a scan session is started.
"""

import pytest
from pydantic import ValidationError

from orthomonitor.schemas.common_schemas import AttachmentCheck
from orthomonitor.schemas.scan_schemas import ConfirmUploadSchema, ScanIntakeSchema


def intake(**overrides) -> dict:
    body = {
        "trayNumber": 5,
        "alignerFit": 1,
        "attachmentCheck": "ALL_PRESENT",
    }
    body.update(overrides)
    return body


@pytest.mark.unit
class TestScanIntakeSchema:

    def test_minimal_body(self):
        data = ScanIntakeSchema.model_validate(intake())
        assert data.tray_number == 5
        assert data.aligner_fit == 1
        assert data.wear_time_hrs is None
        assert data.attachment_check == AttachmentCheck.ALL_PRESENT
        assert data.notes is None

    def test_numeric_strings_are_coerced(self):
        data = ScanIntakeSchema.model_validate(
            intake(trayNumber="5", alignerFit="2", wearTimeHrs="18")
        )
        assert data.tray_number == 5
        assert data.aligner_fit == 2
        assert data.wear_time_hrs == 18

    def test_wear_time_kept_for_good_fit(self):
        data = ScanIntakeSchema.model_validate(intake(alignerFit=1, wearTimeHrs=22))
        assert data.wear_time_hrs == 22

    @pytest.mark.parametrize(
        "field,value",
        [
            ("trayNumber", 0),
            ("alignerFit", 4),
            ("alignerFit", 0),
            ("wearTimeHrs", 25),
            ("wearTimeHrs", -1),
            ("attachmentCheck", "LOST"),
            ("trayNumber", "five"),
        ],
    )
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            ScanIntakeSchema.model_validate(intake(**{field: value}))

    def test_notes_length_limit(self):
        ScanIntakeSchema.model_validate(intake(notes="x" * 1000))
        with pytest.raises(ValidationError):
            ScanIntakeSchema.model_validate(intake(notes="x" * 1001))

    def test_blank_notes_become_none(self):
        data = ScanIntakeSchema.model_validate(intake(notes="   "))
        assert data.notes is None

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            ScanIntakeSchema.model_validate(intake(status="REVIEWED"))
        assert exc_info.value.errors()[0]["type"] == "extra_forbidden"


@pytest.mark.unit
class TestConfirmUploadSchema:

    @pytest.mark.parametrize("key", ["../etc/passwd", "/scans/abc/front.jpg", ""])
    def test_unsafe_keys_rejected(self, key):
        with pytest.raises(ValidationError):
            ConfirmUploadSchema.model_validate(
                {
                    "sessionId": "6f1c1c52-1a53-4c55-9d39-0d7e0d5f0b11",
                    "imageType": "FRONT",
                    "key": key,
                }
            )
