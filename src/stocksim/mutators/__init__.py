# Copyright (c) Syntropy Systems
"""Pure rewrites of solver configuration documents, one per experimental factor."""
