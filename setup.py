from setuptools import setup, find_packages

setup(
    name="crm-rules-engine",
    version="0.1",
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'SQLAlchemy[asyncio]>=2.0.19',
        'aiosqlite>=0.19.0',
        'httpx>=0.25.0',
        'python-dateutil>=2.8.2',
        'python-dotenv>=1.0.0',
        'pydantic>=2.6.1',
        'structlog>=23.1.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'crm-rules=src.main:main',
        ],
    },
)
