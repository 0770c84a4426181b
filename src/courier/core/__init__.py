"""Courier core - payload, durable slot, storage, settings, errors, logging.

Everything in ``courier.core`` is synchronous. Network and timing live in
``courier.execution``.
"""
