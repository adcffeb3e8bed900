"""
Scribe Transcriber - Clinical Audio Transcription Microservice

Converts visit recordings, runs them through an asynchronous speech-to-text
provider and turns the returned tokens into a speaker-attributed transcript
for note generation.
"""

__version__ = "1.0.0"
__author__ = "numediq"
