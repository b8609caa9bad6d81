"""warden - process lifecycle layer for a long-running server."""
