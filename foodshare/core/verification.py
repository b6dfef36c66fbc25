import hmac
import secrets


def generate_code(length: int = 6) -> str:
    """Numeric code of fixed length from the OS CSPRNG (leading zeros kept)."""
    if length < 4:
        raise ValueError("verification code length must be at least 4")
    return str(secrets.randbelow(10 ** length)).zfill(length)


def codes_match(expected: str | None, supplied: str | None) -> bool:
    if not expected or supplied is None:
        return False
    return hmac.compare_digest(str(expected).encode(), str(supplied).strip().encode())
