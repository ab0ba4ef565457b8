"""External services used by the signer."""
