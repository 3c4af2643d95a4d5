# voicequery/audio/__init__.py
# =============================
# Audio Layer — VoiceQuery
#
# Responsibility:
#   - RMS / peak estimation of sample chunks (amplitude.py)
#   - Silence endpointing state machine (endpointing.py)
#   - Live capture with silence gating (recorder.py)
#   - Decoding pre-recorded files to 16 kHz mono float PCM (loader.py)
