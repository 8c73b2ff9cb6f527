"""PassphraseService — generate and check network passphrases offline.

Neither operation touches the conductor or the local store.
"""

from __future__ import annotations

from sharectl.domain.secrets import (
    generate_passphrase,
    normalize_passphrase,
    passphrase_to_seed,
    validate_passphrase,
)
from sharectl.services.result import ServiceResult, failure
from sharectl.services.telemetry import traced


class PassphraseService:
    """Stateless passphrase helpers exposed through the CLI."""

    @traced
    def generate(self) -> ServiceResult:
        passphrase = generate_passphrase()
        return ServiceResult(
            ok=True,
            op="passphrase_generate",
            data={"passphrase": passphrase, "seed": passphrase_to_seed(passphrase)},
        )

    @traced
    def validate(self, passphrase: str) -> ServiceResult:
        """Check *passphrase*; on success report its canonical form and seed."""
        op = "passphrase_validate"
        check = validate_passphrase(passphrase)
        if not check.valid:
            return failure(
                op,
                "INVALID_PASSPHRASE",
                check.message or "Invalid passphrase",
                reason=check.reason,
            )
        canonical = normalize_passphrase(passphrase)
        return ServiceResult(
            ok=True,
            op=op,
            data={"valid": True, "canonical": canonical, "seed": passphrase_to_seed(canonical)},
        )
