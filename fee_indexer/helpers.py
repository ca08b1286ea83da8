from web3 import Web3

from fee_indexer.errors import MalformedEvent

# ---------------- helpers ----------------
def to_hex(x):
    if x is None: return None
    if isinstance(x, (bytes, bytearray)): return Web3.to_hex(x)
    if isinstance(x, int): return hex(x)
    s = str(x)
    return s if s.startswith("0x") else "0x" + s

def to_addr(x):
    if x is None: return None
    return Web3.to_checksum_address(x)

def normalize_address(x) -> str:
    """Canonical storage form: validated, lowercase."""
    return Web3.to_checksum_address(str(x).lower()).lower()

def is_valid_address(x) -> bool:
    try:
        return Web3.is_address(x)
    except (TypeError, ValueError):
        return False

def hex_to_int(x):
    if x is None: return None
    if isinstance(x, int): return x
    if isinstance(x, (bytes, bytearray)): return int.from_bytes(x, "big")
    s = str(x)
    return int(s, 16) if s.startswith("0x") else int(s)

def topic_to_address_from_32b(t) -> str:
    # topics are 32-byte values; address is the last 20 bytes
    h = to_hex(t)[2:]
    if len(h) != 64:
        raise MalformedEvent(f"topic is not 32 bytes: {to_hex(t)}")
    if int(h[:24], 16) != 0:
        raise MalformedEvent(f"topic does not hold an address: {to_hex(t)}")
    return normalize_address("0x" + h[-40:])

def decode_fee_data(data) -> tuple[int, int]:
    """
    FeesCollected data = abi.encode(integratorFee (uint256), lifiFee (uint256))
    """
    h = to_hex(data)[2:]
    if len(h) < 64*2:
        raise MalformedEvent(f"bad FeesCollected data length: {len(h) // 2} bytes")
    try:
        return int(h[:64], 16), int(h[64:128], 16)
    except ValueError as e:
        raise MalformedEvent(f"bad FeesCollected data: {e}") from e
