from setuptools import setup, find_packages

setup(
    name="qualtrics-mcp",
    version="0.1.0",
    description="MCP server exposing the Qualtrics survey API as tools",
    packages=find_packages(include=["qualtrics_mcp", "qualtrics_mcp.*"]),
    python_requires=">=3.11",
    install_requires=[
        "httpx>=0.27",
        "mcp>=1.2,<2",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "qualtrics-mcp=qualtrics_mcp.app.main:main",
        ],
    },
)
