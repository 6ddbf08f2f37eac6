"""k8s-pod-notifier: post a message for every Kubernetes pod termination."""

__version__ = "0.1.0"
