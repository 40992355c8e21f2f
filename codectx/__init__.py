"""codectx: retrieve code context for language-model prompts"""

__version__ = "0.1.0"
