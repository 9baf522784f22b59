"""
Facebook Ads Gateway

Serves a fixed catalogue of Facebook Marketing API tools to MCP, OpenAI
function-calling and Gemini function-calling clients through one execution
path.
"""

__version__ = "2.0.0"
