from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="realtime-segmentation",
    version="1.0.0",
    author="Real-time Segmentation Team",
    description="Real-time semantic segmentation inference on compiled TorchScript and TensorRT graphs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["realtime_segmentation", "realtime_segmentation.*"]),
    py_modules=["main"],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Scientific/Engineering :: Image Processing",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "tensorrt": ["tensorrt>=8.6"],
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "realtime-segmentation=realtime_segmentation.cli:main",
        ],
    },
    include_package_data=True,
    keywords="deep-learning computer-vision semantic-segmentation tensorrt torchscript inference cuda",
)
