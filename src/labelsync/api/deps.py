"""FastAPI dependencies: the committer built by :func:`create_app`."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from labelsync.committer import MergeCommitter


def get_committer(request: Request) -> MergeCommitter:
    return request.app.state.committer


Committer = Annotated[MergeCommitter, Depends(get_committer)]
