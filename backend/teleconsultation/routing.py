# teleconsultation/routing.py

from django.urls import re_path

from . import consumers

websocket_urlpatterns = [

    # ── WebRTC signalling - one doctor + one patient per room ─────────────────
    re_path(r"ws/signaling/$", consumers.SignalingConsumer.as_asgi()),
]
