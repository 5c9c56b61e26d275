"""A scheduler client that hands out job ids without a batch system."""
import os
import sys
sys.path.append(os.path.abspath('.'))
import hpcpipe


class FakeClient(hpcpipe.SchedulerClient):

    """Return incrementing job ids, replay canned accounting output."""

    def __init__(self, dry_run=False, responses=None, qtype='slurm'):
        super(FakeClient, self).__init__(qtype, dry_run=dry_run, tries=1)
        self.count     = 100
        self.scripts   = []
        self.responses = list(responses) if responses else []
        self.queries   = []

    def submit(self, script):
        """Record the script, return the next id."""
        self.scripts.append(script)
        if self.dry_run:
            return super(FakeClient, self).submit(script)
        self.count += 1
        script.submitted = True
        self.submitted.append(str(self.count))
        return str(self.count)

    def query(self, handle):
        """Next canned response, 'COMPLETED' once they run out."""
        self.queries.append(handle)
        if self.responses:
            return self.responses.pop(0)
        return 'State\n----------\nCOMPLETED'

    def queue_length(self):
        return None if self.dry_run else len(self.submitted)


def no_sleep(seconds):
    """Replacement for time.sleep."""
    pass


def script_for(client, name):
    """The submitted Script whose file is <name>.sh."""
    for script in client.scripts:
        if os.path.basename(script.file_name) == name + '.sh':
            return script
    raise KeyError(name)
