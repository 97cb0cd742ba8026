from .keywords import extract_keywords, tokenize, STOP_WORDS

__all__ = ['extract_keywords', 'tokenize', 'STOP_WORDS']
