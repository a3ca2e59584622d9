"""
TOTP (Time-based One-Time Password) and backup-code primitives.

- 6-digit codes, 30-second time step, HMAC-SHA1
- Base32 secrets, compatible with Google Authenticator, Authy, Aegis
- Backup codes are random hex, upper-cased, single use
"""
import base64
import io
import secrets
from typing import Iterable, List, Optional

import pyotp
import qrcode


def generate_totp_secret() -> str:
    """Generate a new random Base32 TOTP secret."""
    return pyotp.random_base32()


def get_totp_uri(secret: str, email: str, issuer: str) -> str:
    """otpauth:// URI that authenticator apps scan."""
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=email, issuer_name=issuer)


def generate_qr_code_base64(uri: str) -> str:
    """
    Render ``uri`` as a Base64-encoded PNG QR code.

    The client shows it with ``<img src="data:image/png;base64,{result}">``.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)

    return base64.b64encode(buffer.read()).decode("utf-8")


def verify_totp(secret: Optional[str], code: Optional[str], valid_window: int = 2) -> bool:
    """
    Verify a 6-digit TOTP code, tolerating ``valid_window`` steps of clock skew
    either side.
    """
    if not secret or not code:
        return False

    code = code.strip().replace(" ", "")
    if len(code) != 6 or not code.isdigit():
        return False

    try:
        totp = pyotp.TOTP(secret)
        return totp.verify(code, valid_window=valid_window)
    except (TypeError, ValueError):
        return False


def normalize_backup_code(code: str) -> str:
    return code.strip().replace("-", "").replace(" ", "").upper()


def generate_backup_codes(count: int = 10, length: int = 8) -> List[str]:
    """``count`` random hex codes of ``length`` characters, upper-cased."""
    return [secrets.token_hex(length // 2).upper() for _ in range(count)]


def match_backup_code(code: str, backup_codes: Iterable[str]) -> Optional[str]:
    """Return the stored code equal to ``code`` after normalisation, if any."""
    candidate = normalize_backup_code(code or "")
    if not candidate:
        return None
    for stored in backup_codes or ():
        if secrets.compare_digest(stored, candidate):
            return stored
    return None
