"""Operator tools for the ONS ACL server."""
