from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="stackgraph",
    version="0.1.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Declarative resource graphs synthesized into ordered infrastructure manifests",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/stackgraph",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "boto3>=1.28.0",
        "pydantic>=2.3.0",
        "python-json-logger>=3.1.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-mock>=3.11.1",
            "black>=23.7.0",
            "isort>=5.12.0",
            "flake8>=6.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "stackgraph-synth=scripts.synth:main",
        ],
    },
)
