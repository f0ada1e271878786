import secrets


class TrueRNG:
    """
    A wrapper around Python's `secrets` module to provide cryptographically strong
    randomness for seeds, verification codes and match ids.
    """

    @staticmethod
    def token_hex(num_bytes: int) -> str:
        """Returns `num_bytes` of CSPRNG output as lowercase hex (2 chars per byte)."""
        if num_bytes <= 0:
            raise ValueError("num_bytes must be positive")
        return secrets.token_hex(num_bytes)

    @staticmethod
    def random_int(min_val: int, max_val: int) -> int:
        """Returns a random integer in the range [min_val, max_val] (inclusive)."""
        # secrets.randbelow(n) returns [0, n). So we need (max - min + 1)
        if min_val > max_val:
            raise ValueError("min_val must be less than or equal to max_val")
        return min_val + secrets.randbelow(max_val - min_val + 1)


rng = TrueRNG()
