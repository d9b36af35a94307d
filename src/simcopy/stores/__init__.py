# Copyright (c) Syntropy Systems
"""Copy sources and destinations: database and text directory."""

from .base import Resolver, Source, TaskLinks, Target
from .db import DbSource, DbTarget
from .text import TextSource, TextTarget, clean_file_name

__all__ = [
    "DbSource",
    "DbTarget",
    "Resolver",
    "Source",
    "TaskLinks",
    "Target",
    "TextSource",
    "TextTarget",
    "clean_file_name",
]
