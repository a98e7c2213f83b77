import os
from dotenv import load_dotenv

load_dotenv(override=True)

server_name = os.getenv("MCP_SERVER_NAME", "yahoo-finance")
transport = os.getenv("MCP_TRANSPORT", "stdio")
log_level = os.getenv("LOG_LEVEL", "INFO").upper()

# How a client spawns this server over stdio
market_mcp = {
    "command": "uv",
    "args": ["run", "market_server.py"],
}
