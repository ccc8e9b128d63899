"""
Browser Access
==============

The agent never touches the DOM itself. It talks to the FoxAgent browser
extension through a small local HTTP bridge and works with the
ExecutionContext (active tab and site) that the bridge reports.
"""

from src.browser.bridge import BridgeError, BrowserBridge, ExecutionContext, site_from_url

__all__ = ["BridgeError", "BrowserBridge", "ExecutionContext", "site_from_url"]
