from setuptools import setup, find_packages

setup(
    name='capture-bridge',
    version='1.0.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    python_requires='>=3.12',
    install_requires=[
        'psutil>=5.9.8',
        'stable-ts>=2.17.3',
        'openai-whisper>=20240930',
    ],
    extras_require={
        'faster': [
            'faster-whisper>=1.0.3',
        ],
        'test': [
            'pytest>=8.0.0',
        ],
    },
    author='Juan Sugg',
    author_email='juanpedrosugg@gmail.com',
    license='MIT',
    keywords='speech transcription whisper queue',
    description='Sequential local transcription engine for voice captures',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
)
