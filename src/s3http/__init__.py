"""s3http - AWS S3 / plain HTTP object access with SigV4 signing and multipart uploads."""

__version__ = "0.1.0"
