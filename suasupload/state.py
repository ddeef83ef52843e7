from __future__ import annotations

from dataclasses import dataclass, field, fields

from .errors import ValidationFailed
from .ledger import UploadLedger


BRANCHES = ("Army", "Navy", "Marine Corps", "Air Force", "Space Force", "Coast Guard")

STEP_PIN = "pin"
STEP_FORM = "form"


@dataclass
class Metadata:
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    branch: str = ""
    rank: str = ""
    serial: str = ""
    boot_camp: str = ""
    last_unit: str = ""

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def update(self, **values: str) -> None:
        unknown = set(values) - set(self.field_names())
        if unknown:
            raise ValidationFailed(
                f"Unknown metadata field(s): {', '.join(sorted(unknown))}",
                user_message="Unknown form field.",
            )
        for k, v in values.items():
            setattr(self, k, v if v is not None else "")

    def has_serial(self) -> bool:
        return bool(self.serial.strip())


@dataclass
class SessionState:
    """Everything one operator session owns; reset in place when it finishes."""

    ledger: UploadLedger
    metadata: Metadata = field(default_factory=Metadata)
    pin: str = ""
    step: str = STEP_PIN

    def reset(self) -> None:
        self.ledger.clear()
        self.metadata = Metadata()
        self.pin = ""
        self.step = STEP_PIN
