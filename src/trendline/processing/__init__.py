"""Processing module - organized by flow.

Submodules:
- trend: trend factor collection, inference scoring, periodic orchestration
- flash: velocity spike detection, flash market lifecycle, payouts
- common: cross-flow utilities (LLM factory)
"""
