from setuptools import setup, find_namespace_packages

setup(
    name="fn-bridge",
    version="0.1.0",
    description="fn-bridge — Google Cloud Functions tools for AI assistants over MCP",
    author="fn-bridge",
    python_requires=">=3.10",
    packages=find_namespace_packages(include=["fnbridge", "fnbridge.*"]),
    py_modules=["fn_bridge"],
    install_requires=[
        "mcp>=1.2.0,<2",
        "pyyaml>=6.0",
        "requests>=2.31.0",
        "google-auth>=2.23.0",
        "google-api-core>=2.15.0",
        "google-cloud-functions>=1.13.0",
        "google-cloud-logging>=3.9.0",
        "googleapis-common-protos>=1.56.0",
        "protobuf>=4.21.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "fn-bridge=fn_bridge:main",
        ],
    },
)
