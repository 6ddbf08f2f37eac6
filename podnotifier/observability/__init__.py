"""Logging and Prometheus metrics for k8s-pod-notifier."""
