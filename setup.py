from setuptools import setup, find_packages

setup(
    name="shieldgate",
    version="0.1.0",
    packages=find_packages(include=["shieldgate", "shieldgate.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette>=0.37",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "sqlalchemy[asyncio]>=2.0",
        "asyncpg>=0.29",
        "aiosqlite>=0.19",
        "redis>=5.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
