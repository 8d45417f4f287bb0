from setuptools import setup

setup(
    name="json-schema-expander",
    version="0.1.0",
    py_modules=["expander", "equivalence", "cli"],
    install_requires=[
        "jsonschema>=4.0",
        "PyYAML>=5.1",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'expand-schema=cli:main',
        ],
    },
    description="Expand $ref pointers in JSON Schema and OpenAPI documents into a single definitions table",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
)
