"""api package: FastAPI service exposing sync, query and crash correlation commands."""

from api.app import create_app  # noqa: F401
