# voicequery/sql/__init__.py
# ===========================
# SQL Layer — VoiceQuery
#
# Responsibility:
#   - Text-to-SQL service client (translation_client.py)
#   - DuckDB data engine: schema extraction, prepare, row streaming (engine.py)
