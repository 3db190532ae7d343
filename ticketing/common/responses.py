"""
Success envelope helpers and upstream error mapping.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Tuple

from flask import jsonify, Response

from ticketing.common.errors import UpstreamError
from ticketing.database.record_store import StoreError


def success(message: str, data: Any = None, status_code: int = 200) -> Tuple[Response, int]:
    """
    Build a success envelope.

    Args:
        message (str): Human readable summary.
        data (Any, optional): Payload. Omitted from the body when None.
        status_code (int): 200 for reads/updates/deletes, 201 for creates.

    Returns:
        tuple: (JSON response, status code)
    """
    body = {"status": "success", "message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), status_code


@contextmanager
def upstream_errors(message: str) -> Iterator[None]:
    """
    Turn any record store failure inside the block into a 500 envelope.

    Errors the handler raises itself (not found, validation) pass through
    untouched, so catch RecordNotFound inside the block when a missing
    row means 404.
    """
    try:
        yield
    except StoreError as e:
        logging.error(f"{message}: {e}")
        raise UpstreamError(message, str(e)) from e
