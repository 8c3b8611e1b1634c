"""Shared DynamoDB utilities.

This package centralizes:
- boto3 client/resource configuration
- retry/backoff policy
- typed, expressive errors that the repositories translate into domain errors
- transactional helpers (TransactWriteItems with optimistic conditions)

"""
