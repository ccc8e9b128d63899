"""
FoxAgent - AI Browser Agent
===========================

A terminal front end for a browser-resident agent that reads pages,
clicks, fills forms and searches on the user's behalf, asking before it
does anything risky.

This package provides:
- Agent loop with native tool calls and an inline-tag fallback
- Harbor permission system (trust policy, decision engine, approvals, audit)
- Browser tools driven through the extension bridge
- Page cache and price watches
"""

__version__ = "1.0.0"
