"""py-hookrelay — signed webhook notifications with handshakes and nonce ordering."""

__version__ = "0.1.0"
