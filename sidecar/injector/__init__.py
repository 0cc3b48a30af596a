"""Admission-webhook handler that injects the sidecar container into pods."""