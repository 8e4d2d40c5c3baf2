"""In-page instrumentation of the dataLayer queue.

DataLayerInjector renders three scripts:

* the install script wraps ``window[queue_name].push`` so every pushed
  argument is recorded in an in-page accumulator before the page's own push
  (GTM's, or ``Array.prototype.push``) runs;
* the drain script returns accumulator entries not returned before;
* the snapshot script reads the queue and the accumulator at the end of a run.

``push`` is installed as an accessor property on the queue. Assignments to
``push`` (GTM replaces it once ``gtm.js`` loads) are kept in a chain the
wrapper delegates to instead of removing the wrapper. Page functions that
call the previously read ``push`` re-enter the wrapper; a re-entry is not
recorded again and continues with the next older function, ending at
``Array.prototype.push``. A non-enumerable flag
on the queue array marks it as wrapped, so running the install script again
is a no-op. A queue array replaced by the page is wrapped on the next drain.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .error_handling import InjectionError

if TYPE_CHECKING:
    from ..capture.browser_session import BrowserSession

logger = logging.getLogger(__name__)


DEFAULT_QUEUE_NAME = "dataLayer"
DEFAULT_STATE_KEY = "__dlwatchMonitor"
DEFAULT_MAX_DEPTH = 10

CAPTURE_ECHO_PREFIX = "DataLayer Event Captured: "


_SAFE_CLONE_JS = r"""
  function safeClone(value, depth, seen) {
    if (value === null || value === undefined) return null;
    var kind = typeof value;
    if (kind === 'string' || kind === 'boolean') return value;
    if (kind === 'number') return isFinite(value) ? value : String(value);
    if (kind === 'bigint' || kind === 'symbol') return value.toString();
    if (kind === 'function') return '[function]';
    if (depth >= config.maxDepth) return '[truncated]';
    try {
      if (typeof Window !== 'undefined' && value instanceof Window) return '[window]';
      if (typeof Node !== 'undefined' && value instanceof Node) {
        return '[element ' + String(value.nodeName || '').toLowerCase() + ']';
      }
      if (value instanceof Date) return isNaN(value.getTime()) ? null : value.toISOString();
      if (seen.indexOf(value) !== -1) return '[circular]';
      seen.push(value);
      var out;
      var tag = Object.prototype.toString.call(value);
      if (Array.isArray(value) || tag === '[object Arguments]') {
        out = [];
        for (var i = 0; i < value.length; i++) {
          out.push(safeClone(value[i], depth + 1, seen));
        }
      } else {
        out = {};
        Object.keys(value).forEach(function (key) {
          var item;
          try {
            item = value[key];
          } catch (e) {
            out[key] = '[unreadable]';
            return;
          }
          out[key] = safeClone(item, depth + 1, seen);
        });
      }
      seen.pop();
      return out;
    } catch (e) {
      return '[unreadable]';
    }
  }
"""


_INSTALL_JS = r"""
(function (config) {
__SAFE_CLONE__
  var state = window[config.stateKey];
  if (!state) {
    state = {installed: false, captured: [], cursor: 0, lastTimestamp: 0, seq: 0, wraps: 0};
    Object.defineProperty(window, config.stateKey, {
      value: state, enumerable: false, configurable: true, writable: true
    });
  }

  function record(arg) {
    var now = Date.now();
    if (now < state.lastTimestamp) now = state.lastTimestamp;
    state.lastTimestamp = now;
    state.seq += 1;
    var data = safeClone(arg, 0, []);
    state.captured.push({data: data, timestamp: now, seq: state.seq});
    try {
      console.log(config.echoPrefix + JSON.stringify(data));
    } catch (e) {}
  }

  function wrap(queue) {
    if (!queue || typeof queue !== 'object') return false;
    if (queue[config.guardKey]) return false;

    // Functions assigned to push, oldest first. A page function that calls
    // the push it read earlier re-enters the wrapper, and each re-entry
    // delegates one step further down this chain.
    var chain = typeof queue.push === 'function' ? [queue.push] : [];
    var depth = 0;
    var wrapper = function () {
      if (depth === 0) {
        for (var i = 0; i < arguments.length; i++) {
          try {
            record(arguments[i]);
          } catch (e) {}
        }
      }
      var index = chain.length - 1 - depth;
      var target = index >= 0 ? chain[index] : Array.prototype.push;
      depth += 1;
      try {
        return target.apply(this, arguments);
      } finally {
        depth -= 1;
      }
    };

    Object.defineProperty(queue, 'push', {
      configurable: true,
      enumerable: false,
      get: function () { return wrapper; },
      set: function (fn) {
        if (typeof fn === 'function' && fn !== wrapper) chain.push(fn);
      }
    });
    Object.defineProperty(queue, config.guardKey, {
      value: true, enumerable: false, configurable: false, writable: false
    });
    state.wraps += 1;
    return true;
  }

  function ensure() {
    if (window[config.queueName] === undefined || window[config.queueName] === null) {
      window[config.queueName] = [];
    }
    return wrap(window[config.queueName]);
  }

  state.ensure = ensure;
  var wrapped = ensure();
  state.installed = true;
  return {installed: true, wrapped: wrapped, wraps: state.wraps};
})(__CONFIG__)
"""


_DRAIN_JS = r"""
(function (config) {
  var state = window[config.stateKey];
  if (!state || !state.installed) return null;
  if (typeof state.ensure === 'function') {
    try {
      state.ensure();
    } catch (e) {}
  }
  var entries = state.captured.slice(state.cursor);
  state.cursor = state.captured.length;
  return entries;
})(__CONFIG__)
"""


_SNAPSHOT_JS = r"""
(function (config) {
__SAFE_CLONE__
  var state = window[config.stateKey];
  var queue = window[config.queueName];
  var exists = queue !== undefined && queue !== null;
  var content = [];
  if (exists) {
    content = Array.isArray(queue) ? safeClone(Array.prototype.slice.call(queue), 0, []) : [safeClone(queue, 0, [])];
  }
  return {
    dataLayer: content,
    monitorCaptured: state ? state.captured.slice() : [],
    queueExists: exists
  };
})(__CONFIG__)
"""


class DataLayerInjector:
    """Installs and reads the in-page push monitor."""

    def __init__(
        self,
        queue_name: str = DEFAULT_QUEUE_NAME,
        state_key: str = DEFAULT_STATE_KEY,
        max_depth: int = DEFAULT_MAX_DEPTH
    ):
        """Initialize injector.

        Args:
            queue_name: Name of the page-global queue to wrap
            state_key: Window property holding the monitor state
            max_depth: Nesting depth beyond which values render as ``[truncated]``
        """
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")

        self.queue_name = queue_name
        self.state_key = state_key
        self.max_depth = max_depth

        config = json.dumps({
            'queueName': queue_name,
            'stateKey': state_key,
            'guardKey': f"{state_key}Wrapped",
            'maxDepth': max_depth,
            'echoPrefix': CAPTURE_ECHO_PREFIX,
        })

        self.install_script = self._render(_INSTALL_JS, config)
        self.drain_script = self._render(_DRAIN_JS, config)
        self.snapshot_script = self._render(_SNAPSHOT_JS, config)

        self.installed = False

    @staticmethod
    def _render(template: str, config: str) -> str:
        return (
            template
            .replace("__SAFE_CLONE__", _SAFE_CLONE_JS)
            .replace("__CONFIG__", config)
            .strip()
        )

    async def install(self, session: "BrowserSession", before_navigation: bool = False) -> bool:
        """Install the push monitor.

        Args:
            session: Open browser session
            before_navigation: Register as an init script so it runs before
                page scripts on every navigation, instead of running it now

        Returns:
            True once the script is registered or has run

        Raises:
            InjectionError: If the script ran but did not install the monitor
        """
        if before_navigation:
            await session.add_init_script(self.install_script)
            logger.debug(f"Registered {self.queue_name} monitor as init script")
            self.installed = True
            return True

        result = await session.execute_script(self.install_script)
        if not isinstance(result, dict) or not result.get('installed'):
            raise InjectionError(f"{self.queue_name} monitor did not report installation: {result!r}")

        wrapped = bool(result.get('wrapped'))
        logger.info(
            f"{self.queue_name} monitor installed"
            + ("" if wrapped else " (already wrapped)")
        )
        self.installed = True
        return True

    async def drain(self, session: "BrowserSession") -> List[Dict[str, Any]]:
        """Return accumulator entries not returned by a previous drain.

        Each entry is ``{"data": ..., "timestamp": epoch_ms, "seq": n}``.
        """
        entries = await session.execute_script(self.drain_script)
        if not entries:
            return []
        return list(entries)

    async def snapshot(self, session: "BrowserSession") -> Dict[str, Any]:
        """Read the queue content and the full accumulator."""
        result: Optional[Dict[str, Any]] = await session.execute_script(self.snapshot_script)
        result = result or {}
        return {
            'dataLayer': list(result.get('dataLayer') or []),
            'monitorCaptured': list(result.get('monitorCaptured') or []),
            'queueExists': bool(result.get('queueExists', False)),
        }

    def __repr__(self) -> str:
        return f"DataLayerInjector(queue={self.queue_name}, installed={self.installed})"
