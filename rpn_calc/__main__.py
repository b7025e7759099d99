import sys

from rpn_calc.main import main

sys.exit(main())
