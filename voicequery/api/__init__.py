# voicequery/api/__init__.py
# ===========================
# HTTP Layer — VoiceQuery
#
# FastAPI application served by main.py (see routes.py).
