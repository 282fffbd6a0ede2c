import sys

from audio_splitter.cli import main

sys.exit(main())
