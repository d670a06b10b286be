"""Address planning exception classes."""


class NetworkError(ValueError):
    """Base exception for address planning errors."""

    pass


class InvalidCIDRError(NetworkError):
    """CIDR text is malformed or not aligned to its prefix."""

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid CIDR '{value}': {reason}")


class InvalidAddressError(NetworkError):
    """IPv4 address text or integer is out of range."""

    def __init__(self, value, reason: str = "not a valid IPv4 address"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid address '{value}': {reason}")


class InvalidPrefixError(NetworkError):
    """Prefix length is not usable for the requested operation."""

    def __init__(self, prefix_len: int, reason: str):
        self.prefix_len = prefix_len
        self.reason = reason
        super().__init__(f"Invalid prefix length /{prefix_len}: {reason}")


class PrefixOverflowError(NetworkError):
    """Subdividing would need a prefix longer than /32."""

    def __init__(self, parent: str, count: int, new_prefix: int):
        self.parent = parent
        self.count = count
        self.new_prefix = new_prefix
        super().__init__(
            f"Cannot split {parent} into {count} blocks: "
            f"resulting prefix /{new_prefix} exceeds /32"
        )


class NotPowerOfTwoError(NetworkError):
    """Block count is not a positive power of two."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"Block count must be a power of two, got {count}")


class ExhaustedError(NetworkError):
    """No free block found within the search window."""

    def __init__(self, prefix_len: int, base: str, tried: int):
        self.prefix_len = prefix_len
        self.base = base
        self.tried = tried
        super().__init__(
            f"No free /{prefix_len} block found from {base} after {tried} candidates"
        )


class PlanValidationError(NetworkError):
    """A configuration record violates an address plan constraint."""

    def __init__(self, key: str, value: str, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"{key}={value}: {reason}")
