from setuptools import setup, find_packages

setup(
    name="sentinel-audit-processor",
    version="0.1.0",
    description="Turns captured compliance snapshots into structured audit findings and narrative reports",
    author="Sentinel Engineering",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={
        "audit_processor.config": ["pipeline_config.yaml"],
        "audit_processor.prompts": ["site_audit/*.yaml"],
    },
    python_requires=">=3.10",
    install_requires=[
        "anthropic>=0.25",
        "httpx>=0.25",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "pyyaml>=6.0",
        "structlog>=23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "audit-processor=audit_processor.cli:main",
        ],
    },
)
