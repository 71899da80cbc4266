import sys

from protoc_gen_openapi.main import main

sys.exit(main())
