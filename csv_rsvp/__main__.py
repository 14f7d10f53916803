import sys

from csv_rsvp.cli import main

sys.exit(main())
