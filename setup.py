#!/usr/bin/env python3
"""
Setup script for the room chat WebSocket client
"""

from setuptools import setup, find_packages

setup(
    name="roomchat",
    version="0.0.1",
    description="Room chat WebSocket client with automatic reconnection",
    packages=find_packages(include=["client", "client.*", "shared", "shared.*"]),
    install_requires=[
        "websockets==15.0",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "aioconsole==0.8.1",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'roomchat=client.chat_cli:main',
        ],
    },
)
