"""
Setup configuration for the shared storage CDK constructs.

Packages CDK constructs that deploy an EBS-backed NFS server and mount NFS
and FSx for Lustre filesystems onto Linux EC2 instances.
"""

from setuptools import setup, find_packages
import os

# Read the README file for the long description
def read_readme():
    """Read and return the contents of the README file."""
    readme_path = os.path.join(os.path.dirname(__file__), "README.md")
    if os.path.exists(readme_path):
        with open(readme_path, "r", encoding="utf-8") as f:
            return f.read()
    return "CDK constructs for shared NFS and FSx for Lustre filesystems"

# Read requirements from requirements.txt
def read_requirements():
    """Read and return the requirements from requirements.txt."""
    requirements_path = os.path.join(os.path.dirname(__file__), "requirements.txt")
    requirements = []
    if os.path.exists(requirements_path):
        with open(requirements_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    requirements.append(line)
    return requirements

setup(
    name="cdk-shared-storage",
    version="1.0.0",
    description="CDK constructs for shared NFS and FSx for Lustre filesystems",
    long_description=read_readme(),
    long_description_content_type="text/markdown",

    # Package configuration
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["app"],
    include_package_data=True,
    zip_safe=False,

    # Python version requirement
    python_requires=">=3.9",

    # Dependencies
    install_requires=read_requirements(),

    # Development dependencies
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.991",
        ],
    },

    # Bundled bash scripts are staged as CDK assets
    package_data={
        "shared_storage": ["scripts/bash/*.sh"],
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: System :: Filesystems",
        "Topic :: System :: Systems Administration",
    ],

    keywords=[
        "aws",
        "cdk",
        "nfs",
        "lustre",
        "fsx",
        "ebs",
        "mount",
        "storage",
    ],
)
