from setuptools import setup, find_packages

setup(
    name="annotator",
    version="0.1.0",
    packages=find_packages(include=["annotator", "annotator.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette>=0.36",
        "pydantic>=2.6",
        "pydantic-settings>=2.2",
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg>=0.29",
        "aiosqlite>=0.19",
        "uvicorn>=0.27",
        "minio>=7.2",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
