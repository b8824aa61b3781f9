# (c) 2026 IdentKit contributors
# Licensed under the MIT license: http://www.opensource.org/licenses/mit-license.php
