"""Request-scoped access to the service graph."""

from fastapi import Request

from notifier.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
