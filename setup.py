from setuptools import setup, find_packages

setup(
    name="glowmarkt2influx",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["glowmarktclient*", "influxclient*", "glowmarkt2influx*"]),
    python_requires=">=3.9",
    install_requires=[
        "httpx>=0.24",
        "tenacity>=8.0",
        "pandas>=1.5",
        "influxdb-client>=1.36",
        "urllib3>=1.26",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "glowmarkt2influx=glowmarkt2influx.cli:main",
        ],
    },
    description="Pull Bright/GlowMarkt smart-meter readings into InfluxDB.",
    author="",
    author_email="",
    include_package_data=True,
)
