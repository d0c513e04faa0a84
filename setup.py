from setuptools import setup, find_namespace_packages

setup(
    name="aicampaign",
    version="0.1.0",
    packages=find_namespace_packages(include=["aicampaign", "aicampaign.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg>=0.29",
        "aiosqlite>=0.19",
        "redis>=5.0",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
