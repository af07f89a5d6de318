from setuptools import setup, find_packages

with open('requirements.txt') as f:
    required = f.read().splitlines()

setup(
    name='tfparity-cli',
    version='0.1.0',
    description='tfparity checks that a Terraform HCL configuration and a Pulumi-style TypeScript program describe the same resource graph.',
    author='Forge',
    author_email='team@tryforge.ai',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    install_requires=required,
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'tfparity=CLI.parity_cli:cli',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.10',
)
