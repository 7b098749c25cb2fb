from __future__ import annotations

from soundsos.run import main


if __name__ == "__main__":
    main()
