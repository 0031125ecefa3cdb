"""
Rejects transcription artifacts that carry no real speech.

Whisper-style models fill silence and noise with stock phrases ("Thank you
for watching."), sound tags and repeated tokens. These never reach
reconciliation.
"""

HALLUCINATIONS = frozenset(phrase.lower() for phrase in [
    # Generic filler and closings
    '...',
    'Thank you.',
    'Thank you',
    'Thank you for watching.',
    'Thank you for watching',
    'Thank you for watching this video.',
    'Thanks for watching.',
    'Thanks for watching',
    'Subscribe',
    'Subscribe to my channel.',
    'Like and subscribe.',
    "Don't forget to subscribe.",
    'Please subscribe.',
    'Share this video.',
    'Share this video with your friends.',
    '📢 Share this video with your friends on social media.',

    # Korean filler Whisper often produces on silence
    '시청해 주셔서 감사합니다.',
    '구독과 좋아요 부탁드립니다.',
    '감사합니다.',

    # Sound tags
    'Music',
    'Applause',
    'Laughter',
    '♪ Music ♪',
    '[Music]',
    '[Applause]',
    '[Laughter]',
    '(Music)',
    '[BLANK_AUDIO]',

    # Lone function words
    'you',
    'I',
    'a',
    'the',
    'and',
    'is',
    'it',
])

MIN_TEXT_LENGTH = 3
MIN_SINGLE_WORD_LENGTH = 4


def is_valid(text: str) -> bool:
    """Return False if text is likely a hallucination rather than speech."""
    if not text:
        return False

    text = text.strip()
    if len(text) < MIN_TEXT_LENGTH:
        return False

    lowered = text.lower()
    if lowered in HALLUCINATIONS:
        return False

    words = lowered.split()
    if len(words) == 1 and len(text) < MIN_SINGLE_WORD_LENGTH:
        return False

    # Degenerate repetition ("a a a a")
    if len(words) > 1 and len(set(words)) == 1:
        return False

    # Emoji, symbols and punctuation only
    if not any(ch.isalnum() for ch in text):
        return False

    return True
