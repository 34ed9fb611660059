"""
Vault Keys — secp256k1 signing key generation and validation.

Secrets are kept as ``0x``-prefixed lowercase hex strings, the form wallet
records have always stored.
"""
import re

from eth_account import Account

from ..exceptions import InvalidCredentialFormatError

_HEX_KEY_PATTERN = re.compile(r"^(0x)?([0-9a-fA-F]{64})$")
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def normalize_private_key(raw: str) -> str:
    """Normalize a user-supplied private key to ``0x`` + 64 lowercase hex.

    Args:
        raw: Hex private key, with or without ``0x``.

    Returns:
        Normalized key string.

    Raises:
        InvalidCredentialFormatError: If the value is not 32 bytes of hex or
            is not a valid secp256k1 scalar.
    """
    if not isinstance(raw, str):
        raise InvalidCredentialFormatError()
    match = _HEX_KEY_PATTERN.match(raw.strip())
    if match is None:
        raise InvalidCredentialFormatError()
    key = "0x" + match.group(2).lower()
    if not 0 < int(key, 16) < SECP256K1_ORDER:
        raise InvalidCredentialFormatError()
    address_for(key)
    return key


def address_for(private_key: str) -> str:
    """Return the EIP-55 checksummed address for a private key.

    Raises:
        InvalidCredentialFormatError: If the key does not form a keypair.
    """
    try:
        return Account.from_key(private_key).address
    except Exception as err:
        raise InvalidCredentialFormatError() from err


def generate_private_key() -> tuple[str, str]:
    """Generate a fresh random signing key.

    Returns:
        Tuple of (private_key, address).
    """
    account = Account.create()
    private_key = "0x" + bytes(account.key).hex()
    return private_key, account.address
