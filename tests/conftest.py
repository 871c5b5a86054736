import os

# boto3 needs a region to build clients at import time; no calls leave the tests
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("USE_DYNAMODB", "false")
