"""HTTP gateway for an S3-compatible object store."""
