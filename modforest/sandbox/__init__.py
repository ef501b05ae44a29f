"""Isolated parser execution and its JSON wire format."""

from modforest.sandbox.bridge import SandboxBridge, SandboxedParser
from modforest.sandbox.wire import decode_response, encode_error, encode_record

__all__ = ["SandboxBridge", "SandboxedParser", "decode_response", "encode_error", "encode_record"]
