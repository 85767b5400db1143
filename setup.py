from setuptools import setup, find_packages
import os

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
try:
    with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
        long_description = f.read()
except FileNotFoundError:
    long_description = "Adaptive Encoder - content-adaptive x265 encoding with auto-crop and HDR detection"

setup(
    name="adaptive-encoder",
    version="1.0.0",
    description="Content-adaptive x265 encoding decisions and multi-pass orchestration",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Multimedia :: Video :: Conversion",
    ],
    python_requires=">=3.8",
    install_requires=[
        "tqdm>=4.0.0",
        "psutil>=5.0.0",  # Encoder process-tree termination
        "numpy>=1.20",  # Grain / texture / spatial statistics
    ],
    extras_require={
        "dev": [
            "pytest",
            "black",
            "flake8",
        ],
    },
    entry_points={
        "console_scripts": [
            "adaptive-encode=adaptive_encoder.cli:main",
            "adaptive-encode-select=adaptive_encoder.cli:select_main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
