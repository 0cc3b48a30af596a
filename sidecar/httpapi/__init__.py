"""Versioned HTTP API for state, pub/sub, bindings and actors."""