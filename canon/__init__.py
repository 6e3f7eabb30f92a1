"""
canon - content identity registry and AI translation pipeline.

Every Markdown/MDX content unit gets a stable canonical ID, independent of
its path or language. The registry tracks which translations exist and
whether they are current; the generator fills the gaps with AI
translations that are screened, committed, and resumable.
"""

__version__ = "0.1.0"
