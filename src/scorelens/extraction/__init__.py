"""Payload parsing and run reading shared by the explanation extractors."""

from scorelens.extraction.payloads import parse_payload, parse_scalar
from scorelens.extraction.steps import RunReader, first_entry

__all__ = ["RunReader", "first_entry", "parse_payload", "parse_scalar"]
