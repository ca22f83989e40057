"""Telephony audio helpers.

Twilio delivers and expects 8 kHz mono G.711 mu-law; everything here converts
between that wire format and the linear PCM used by speech services.
"""
