"""Shared utilities."""

import keyword
import re
import uuid


def generate_session_id() -> str:
    return str(uuid.uuid4())


def to_identifier(node_id: str) -> str:
    """Turns a node id such as "http-fetch-1" into a Python identifier"""
    name = re.sub(r'\W', '_', node_id)
    if not name or name[0].isdigit() or keyword.iskeyword(name):
        name = f"n_{name}"
    return name
