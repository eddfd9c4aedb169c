# teleconsultation/management/commands/runsignaling.py
#
#   python manage.py runsignaling [--host 0.0.0.0] [--port 3001]
#
# Serves the ASGI application (signaling socket at ws/signaling/ plus the
# HTTP API) with daphne. Exits 0 on Ctrl-C / SIGTERM, 1 if the port can't be bound.

import logging
import socket

from channels.routing import get_default_application
from daphne.endpoints import build_endpoint_description_strings
from daphne.server import Server
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

logger = logging.getLogger(__name__)


def probe_bind(host, port):
    """Raise OSError now rather than letting the reactor log it and keep running."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))


class Command(BaseCommand):
    help = "Run the teleconsultation signaling relay"

    def add_arguments(self, parser):
        parser.add_argument("--host", default=settings.SIGNALING_HOST)
        parser.add_argument("--port", type=int, default=settings.SIGNALING_PORT)

    def handle(self, *args, **options):
        host, port = options["host"], options["port"]
        try:
            probe_bind(host, port)
        except OSError as exc:
            raise CommandError(f"Cannot bind signaling server to {host}:{port}: {exc}")

        endpoints = build_endpoint_description_strings(host=host, port=port)
        logger.info("Signaling relay listening on %s:%s (media server %s)",
                    host, port, settings.MEDIA_SERVER_DOMAIN)

        Server(
            application=get_default_application(),
            endpoints=endpoints,
            signal_handlers=True,
        ).run()

        logger.info("Signaling relay stopped")
